"""
Printer Model
=============

Represents a printer a job can be delivered to.
"""

from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any

from ..errors import InvalidRecordError


@dataclass
class Printer:
    """Printer record as read from the printer store."""

    printer_id: int = 0
    name: str = ""

    # IP[:port] for network printers, queue/share name for local printers
    address: str = ""

    # Command set hint (ZPL, TSPL, PDF ...); informational only
    engine: Optional[str] = None

    # Print darkness override (None = worker default)
    darkness: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Printer':
        """Create from a store row (snake_case or database column names)."""
        row = {k.replace('_', '').lower(): v for k, v in data.items()}

        address = row.get('address') or row.get('ipaddress') or row.get('name') or ''
        if not address:
            raise InvalidRecordError(f'Printer record has no address: {data!r}')
        try:
            return cls(
                printer_id=int(row.get('printerid', row.get('id', 0)) or 0),
                name=str(row.get('name') or address),
                address=str(address).strip(),
                engine=row.get('engine') or row.get('commandset') or row.get('printertype'),
                darkness=int(row['darkness']) if row.get('darkness') is not None else None,
            )
        except (TypeError, ValueError) as e:
            raise InvalidRecordError(f'Invalid printer record: {e}')
