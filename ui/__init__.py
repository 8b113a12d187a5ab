"""UI layer -- Rich dashboard and output formatters."""

from .dashboard import (
    ProgressDisplay,
    console,
    create_histogram,
    print_endpoint_info,
    print_error,
    print_final_results,
    print_header,
    print_history,
    print_latency_details,
    print_speed_result,
    print_summary,
)
from .output import (
    append_csv,
    create_result_json,
    format_csv_header,
    format_csv_row,
    format_text_result,
    save_json,
)

__all__ = [
    "ProgressDisplay",
    "append_csv",
    "console",
    "create_histogram",
    "create_result_json",
    "format_csv_header",
    "format_csv_row",
    "format_text_result",
    "print_endpoint_info",
    "print_error",
    "print_final_results",
    "print_header",
    "print_history",
    "print_latency_details",
    "print_speed_result",
    "print_summary",
    "save_json",
]
