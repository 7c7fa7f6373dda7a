import fnmatch

NON_CODE_EXTENSIONS = {
    ".png",
    ".jpg",
    ".jpeg",
    ".gif",
    ".svg",
    ".ico",
    ".webp",
    ".bmp",
    ".pdf",
    ".woff",
    ".woff2",
    ".ttf",
    ".eot",
    ".otf",
    ".mp4",
    ".mp3",
    ".wav",
    ".ogg",
    ".zip",
    ".tar",
    ".gz",
    ".rar",
    ".7z",
    ".lock",  # e.g. package-lock.json, Pipfile.lock
}


def is_code_file(file_name: str) -> bool:
    return not any(file_name.lower().endswith(ext) for ext in NON_CODE_EXTENSIONS)


def is_excluded(filename: str, patterns: list[str]) -> bool:
    """Return True if filename matches any exclude pattern.

    Supports:
    - fnmatch globs on the full path: "src/generated/*.py"
    - fnmatch globs on the basename: "*.lock", "*.min.js"
    - Directory names/prefixes: "migrations/", "tests" (matches any file within that tree)
    """
    for pattern in patterns:
        if fnmatch.fnmatch(filename, pattern):
            return True
        # Basename match: "*.lock" matches "path/to/yarn.lock"
        if fnmatch.fnmatch(filename.rsplit("/", 1)[-1], pattern):
            return True
        # Directory prefix: "migrations" or "migrations/" matches "app/migrations/0001.py"
        prefix = pattern.rstrip("/") + "/"
        if filename.startswith(prefix) or ("/" + prefix) in filename:
            return True
    return False
