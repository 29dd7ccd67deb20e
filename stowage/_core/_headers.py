from __future__ import annotations

from typing import (
    Any,
    Iterable,
    Iterator,
    List,
    Mapping,
    MutableMapping,
    Optional,
    Tuple,
    Union,
)


class Headers(MutableMapping[str, str]):
    def __init__(self, headers: Mapping[str, Union[str, List[str]]] | Iterable[Tuple[str, str]] = ()) -> None:
        self._headers: dict[str, list[str]] = {}
        items = headers.items() if isinstance(headers, Mapping) else headers
        for key, value in items:
            values = [value] if isinstance(value, str) else value[:]
            self._headers.setdefault(key.lower(), []).extend(values)

    def get_list(self, key: str) -> Optional[List[str]]:
        return self._headers.get(key.lower(), None)

    def multi_items(self) -> List[Tuple[str, str]]:
        return [(key, value) for key, values in self._headers.items() for value in values]

    def copy(self) -> "Headers":
        return Headers(self._headers)

    def __getitem__(self, key: str) -> str:
        return ", ".join(self._headers[key.lower()])

    def __setitem__(self, key: str, value: str) -> None:
        self._headers.setdefault(key.lower(), []).append(value)

    def __delitem__(self, key: str) -> None:
        del self._headers[key.lower()]

    def __iter__(self) -> Iterator[str]:
        return iter(self._headers)

    def __len__(self) -> int:
        return len(self._headers)

    def __repr__(self) -> str:
        return repr(self._headers)

    def __str__(self) -> str:
        return str(self._headers)

    def __eq__(self, other_headers: Any) -> bool:
        return isinstance(other_headers, Headers) and self._headers == other_headers._headers


def parse_accept(values: Optional[List[str]]) -> Tuple[str, ...]:
    """
    Extract the media ranges listed in one or more Accept header values.

    Parameters such as `q` weights are dropped and media ranges are lower-cased.
    Ordering follows the header, duplicates are kept only once.

    Examples:
        >>> parse_accept(["text/html,application/xhtml+xml;q=0.9, */*;q=0.8"])
        ('text/html', 'application/xhtml+xml', '*/*')
        >>> parse_accept(None)
        ()
    """
    if not values:
        return ()

    media_types: list[str] = []
    for value in values:
        for media_range in value.split(","):
            media_type = media_range.split(";", 1)[0].strip().lower()
            if media_type and media_type not in media_types:
                media_types.append(media_type)
    return tuple(media_types)
