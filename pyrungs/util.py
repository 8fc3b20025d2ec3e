from typing import Optional, TypeVar

T = TypeVar('T')

def ensure(value: Optional[T], what: str = "value") -> T:
    """Narrow an Optional to its value; RuntimeError names what was missing."""
    if value is None:
        raise RuntimeError(f"Expected {what}, got None")
    return value
