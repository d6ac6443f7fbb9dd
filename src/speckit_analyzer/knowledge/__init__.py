"""Cross-run knowledge: per-run memos, the memo-history ledger, and label trends."""

from speckit_analyzer.knowledge.history import (
    MemoHistoryUpdate,
    read_memo_history,
    update_memo_history,
)
from speckit_analyzer.knowledge.memo import DEFAULT_LESSON, build_memo
from speckit_analyzer.knowledge.trends import (
    LabelDailyRecord,
    LabelTrendPoint,
    build_label_trend_series,
    label_records_from_history,
    render_trend_report,
    rolling_average_series,
    sparkline,
)

__all__ = [
    "DEFAULT_LESSON",
    "LabelDailyRecord",
    "LabelTrendPoint",
    "MemoHistoryUpdate",
    "build_label_trend_series",
    "build_memo",
    "label_records_from_history",
    "read_memo_history",
    "render_trend_report",
    "rolling_average_series",
    "sparkline",
    "update_memo_history",
]
