"""Parser for the human-readable interval of the 'every' directive."""

from datetime import timedelta

from common.exceptions import ConfigError

TIME_UNITS = {
    timedelta(milliseconds=1): ("ms", "milisecond", "miliseconds", "millisecond", "milliseconds"),
    timedelta(seconds=1): ("s", "second", "seconds"),
    timedelta(minutes=1): ("m", "min", "minute", "minutes"),
    timedelta(hours=1): ("h", "hour", "hours"),
    timedelta(days=1): ("d", "day", "days"),
    timedelta(weeks=1): ("w", "week", "weeks"),
    timedelta(seconds=2628288): ("n", "mon", "month", "months"),
    timedelta(days=365 + 6): ("y", "year", "years"),
}

UNIT_ALIASES = {alias: unit for unit, aliases in TIME_UNITS.items() for alias in aliases}


def _unit(name: str) -> timedelta:
    try:
        return UNIT_ALIASES[name]
    except KeyError:
        raise ConfigError(f"failed to parse duration: unknown unit '{name}'") from None


def parse_duration(text: str) -> timedelta:
    """
    Parse a sum of duration terms.

    Each whitespace-separated term is one of "<n> <unit>", "<n><unit>" or a
    bare "<unit>" meaning one of it, e.g. "1 day 12h", "week", "30 min".

    Args:
        text: Duration expression

    Returns:
        Total duration

    Raises:
        ConfigError: On a missing or unknown unit or a malformed term
    """
    total = timedelta()
    tokens = iter(text.split())

    for token in tokens:
        if token.isascii() and token.isdigit():
            unit = next(tokens, None)
            if unit is None:
                raise ConfigError("failed to parse duration: unit is not specified")
            total += _unit(unit) * int(token)
            continue

        digits = len(token) - len(token.lstrip("0123456789"))
        if digits:
            total += _unit(token[digits:]) * int(token[:digits])
            continue

        if token in UNIT_ALIASES:
            total += UNIT_ALIASES[token]
            continue

        raise ConfigError(f"failed to parse duration: undefined directive '{token}'")

    return total
