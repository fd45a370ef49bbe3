"""JSON output for ``--json`` runs."""

import dataclasses
import json
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from rich.console import Console


class CLIJSONEncoder(json.JSONEncoder):
    """Encodes outcome enums, timestamps, paths and dataclass records."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, Path):
            return str(obj)
        if isinstance(obj, (set, frozenset)):
            return sorted(obj)
        if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
            return dataclasses.asdict(obj)
        return super().default(obj)


def json_output(console: Console, data: Any) -> None:
    console.print_json(json.dumps(data, cls=CLIJSONEncoder))
