from __future__ import annotations

from pathlib import Path


def load_domain_names(path: Path | str) -> list[str]:
    """Read domain names, one per line; blank lines and ``#`` comments are skipped."""

    names: list[str] = []
    with Path(path).open("r", encoding="utf-8") as fp:
        for line in fp:
            name = line.strip()
            if not name or name.startswith("#"):
                continue
            names.append(name)
    return names
