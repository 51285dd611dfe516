from types import MappingProxyType
from typing import List, Mapping, Optional, Sequence

from paymaster.core.exceptions import PayrollValidationError
from paymaster.schemas.payroll import ExportRequest

DEFAULT_EXPORT_FORMATS: Mapping[str, str] = MappingProxyType({
    "bank": "csv",
    "gl": "xlsx",
    "statutory": "pdf",
})


def _slug(value: str) -> str:
    return "-".join(value.lower().split()) or "payroll"


def normalize_export_requests(
    requests: Sequence[ExportRequest],
    period: str,
    run_id: Optional[str] = None,
) -> List[ExportRequest]:
    """
    Give every requested export its default format and a filename.

    Duplicates of the same type and format are collapsed. Rendering the
    files is left to the export consumer.
    """
    normalized: List[ExportRequest] = []
    seen = set()
    for request in requests:
        export_type = request.type.strip().lower()
        if export_type not in DEFAULT_EXPORT_FORMATS:
            raise PayrollValidationError(
                f"Unsupported export type: {request.type}",
                details={"supported": sorted(DEFAULT_EXPORT_FORMATS)},
            )
        fmt = (request.format or DEFAULT_EXPORT_FORMATS[export_type]).lower()
        if (export_type, fmt) in seen:
            continue
        seen.add((export_type, fmt))

        filename = request.filename
        if not filename:
            suffix = f"-{run_id[:8]}" if run_id else ""
            filename = f"payroll-{_slug(period)}{suffix}-{export_type}.{fmt}"
        normalized.append(ExportRequest(type=export_type, format=fmt, filename=filename))
    return normalized
