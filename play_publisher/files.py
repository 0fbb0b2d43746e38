from pathlib import Path


def split_patterns(value: str) -> list[str]:
    return [p.strip() for p in value.split(',') if p.strip()]


def find_files(base_dir: Path, patterns: str | list[str]) -> list[str]:
    """
    Returns the sorted, de-duplicated relative paths of files under `base_dir`
    matching any of the given glob patterns (`**` spans directories).

    `patterns` may be a list or a single comma-separated string, e.g.
    `'**/build/outputs/**/*.aab, **/build/outputs/**/*.apk'`.
    """
    if isinstance(patterns, str):
        patterns = split_patterns(patterns)

    base_dir = Path(base_dir)
    found: set[str] = set()
    for pattern in patterns:
        pattern = pattern.lstrip('/')
        for p in base_dir.glob(pattern):
            if p.is_file():
                found.add(p.relative_to(base_dir).as_posix())
    return sorted(found)
