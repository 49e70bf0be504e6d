"""Query parameter parsing shared by the routers."""

from __future__ import annotations

from enum import Enum
from typing import List, Optional, Sequence, Type, TypeVar

from floatr.domain.common.errors import ValidationError

E = TypeVar("E", bound=Enum)


def parse_enum_list(raw: Optional[Sequence[str]], enum_cls: Type[E], *, field: str) -> List[E]:
	"""Accept repeated and comma separated values; unknown values are a ValidationError."""
	values: List[E] = []
	for chunk in raw or ():
		for part in str(chunk).split(","):
			part = part.strip().lower()
			if not part:
				continue
			try:
				value = enum_cls(part)
			except ValueError:
				raise ValidationError(f"invalid_{field}", field=field) from None
			if value not in values:
				values.append(value)
	return values


def parse_enum(raw: Optional[str], enum_cls: Type[E], *, field: str) -> Optional[E]:
	if raw is None or not str(raw).strip():
		return None
	try:
		return enum_cls(str(raw).strip().lower())
	except ValueError:
		raise ValidationError(f"invalid_{field}", field=field) from None
