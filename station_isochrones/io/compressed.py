from __future__ import annotations

from pathlib import Path
from zipfile import BadZipFile, ZipFile


def ensure_unzipped(path: Path) -> Path:
    """Ensure a building dataset exists, extracting `path + ".zip"` into place if needed.

    Shapefiles are shipped as several sidecar files, so every member sharing
    `path.stem` is extracted next to `path`.
    """
    path = Path(path)
    if path.exists():
        return path

    zip_path = path.with_suffix(path.suffix + ".zip")
    if not zip_path.exists():
        raise FileNotFoundError(f"Missing required file: {path} (or zipped: {zip_path})")

    path.parent.mkdir(parents=True, exist_ok=True)

    try:
        with ZipFile(zip_path) as zf:
            files = [n for n in zf.namelist() if n and not n.endswith("/")]
            members = [n for n in files if Path(n).stem == path.stem]
            if not any(Path(n).name == path.name for n in members):
                raise ValueError(f"Zip {zip_path} does not contain a file named {path.name!r}.")
            for member in members:
                extracted = Path(zf.extract(member, path.parent))
                extracted.replace(path.parent / Path(member).name)
    except BadZipFile as exc:
        raise ValueError(f"Corrupt zip archive: {zip_path}") from exc

    if not path.exists() or path.stat().st_size <= 0:
        raise RuntimeError(f"Extraction failed: {zip_path} -> {path}")
    return path
