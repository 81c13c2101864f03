"""Small formatting helpers."""

SIZE_UNITS = ('B', 'KiB', 'MiB', 'GiB', 'TiB', 'PiB')


def format_file_size(size_bytes: int) -> str:
    """
    Format a byte count with binary (1024-based) units, e.g. "1.50 MiB".

    Counts below 1 KiB are printed as whole bytes.
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"

    size = float(size_bytes)
    for unit in SIZE_UNITS[:-1]:
        if size < 1024.0:
            return f"{size:.2f} {unit}"
        size /= 1024.0
    return f"{size:.2f} {SIZE_UNITS[-1]}"
