"""
Sales and staff reports.

Bills are filtered to the requested period locally, summarized, handed to
the AI collaborator for the narrative, and the result is emailed. Every
failure is returned as ``ReportResult(success=False)``.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Literal, Optional, Tuple
from zoneinfo import ZoneInfo

from pydantic import BaseModel

import ai_client
from notifier import EmailNotifier, email_notifier
from pricing import round_currency

logger = logging.getLogger(__name__)

ReportType = Literal["daily", "monthly", "yearly"]


class BillSummary(BaseModel):
    id: str
    total: float
    timestamp: str  # ISO-8601


class EmployeeSummary(BaseModel):
    id: str
    name: str
    role: str
    salary: float


class ReportInput(BaseModel):
    report_type: ReportType
    recipient_email: str
    current_date: str
    bill_history: List[BillSummary]
    employees: List[EmployeeSummary]
    bill_count: int
    total_revenue: float


class ReportOutput(BaseModel):
    report_title: str
    report_content: str
    total_revenue: float


class ReportResult(BaseModel):
    success: bool
    message: str
    bill_count: int = 0
    total_revenue: float = 0.0


@ai_client.prompt("sales-report")
def _report_prompt(inp: ReportInput) -> str:
    bills = "[" + ", ".join(b.model_dump_json() for b in inp.bill_history) + "]"
    staff = "[" + ", ".join(e.model_dump_json() for e in inp.employees) + "]"
    return f"""You are an expert financial analyst for a restaurant. Your task is to generate a sales and staff report based on the provided data. The report should be clear, concise, and ready to be emailed.

Report Type: {inp.report_type}
Recipient: {inp.recipient_email}
Current Date: {inp.current_date}

The bill history below is already filtered to the reporting period.
Total number of bills: {inp.bill_count}
Total revenue: {inp.total_revenue:.2f}

Your report should contain the following sections:
1.  **Sales Summary**:
    *   Total number of bills.
    *   Total revenue from all bills in the period.
    *   A list of all bills with their ID and total amount.
2.  **Staff Summary**:
    *   A list of all employees with their name, role, and salary.

Bill History (JSON):
{bills}

Employee Data (JSON):
{staff}

Generate the report title and content. The content should be well-formatted for an email. Put the total revenue in the "total_revenue" field.
"""


def _as_aware(ts: datetime) -> datetime:
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=timezone.utc)


def filter_bills_for_period(
    bills: Iterable[Dict[str, Any]],
    report_type: ReportType,
    now: datetime,
    tz: str = "UTC",
    field: str = "timestamp",
) -> List[Dict[str, Any]]:
    zone = ZoneInfo(tz)
    today = _as_aware(now).astimezone(zone)
    out = []
    for b in bills:
        ts = b.get(field)
        if not isinstance(ts, datetime):
            continue
        local = _as_aware(ts).astimezone(zone)
        if local.year != today.year:
            continue
        if report_type in ("monthly", "daily") and local.month != today.month:
            continue
        if report_type == "daily" and local.day != today.day:
            continue
        out.append(b)
    return out


def summarize(bills: Iterable[Dict[str, Any]]) -> Tuple[int, float]:
    count = 0
    revenue = 0.0
    for b in bills:
        count += 1
        revenue += float(b.get("total") or 0)
    return count, round_currency(revenue)


def _serialize_bills(bills: Iterable[Dict[str, Any]]) -> List[BillSummary]:
    return [
        BillSummary(id=str(b.get("id")), total=float(b.get("total") or 0), timestamp=_as_aware(b["timestamp"]).isoformat())
        for b in bills
    ]


async def compile_and_send_report(
    report_type: ReportType,
    bills: List[Dict[str, Any]],
    employees: List[Dict[str, Any]],
    recipient_email: str,
    notifier: Optional[EmailNotifier] = None,
    now: Optional[datetime] = None,
    tz: str = "UTC",
) -> ReportResult:
    now = now or datetime.now(timezone.utc)
    notifier = notifier or email_notifier

    period = filter_bills_for_period(bills, report_type, now, tz)
    count, revenue = summarize(period)

    try:
        payload = ReportInput(
            report_type=report_type,
            recipient_email=recipient_email,
            current_date=_as_aware(now).astimezone(ZoneInfo(tz)).strftime("%a %b %d %Y"),
            bill_history=_serialize_bills(period),
            employees=[
                EmployeeSummary(id=str(e.get("id")), name=e["name"], role=e["role"], salary=float(e["salary"]))
                for e in employees
            ],
            bill_count=count,
            total_revenue=revenue,
        )
        output = await ai_client.generate("sales-report", payload, ReportOutput)
        if output is None:
            raise ai_client.AIGenerationError("Failed to generate the report content.")

        sent = notifier.send(
            recipient=recipient_email,
            subject=output.report_title,
            body=output.report_content,
            total_amount=output.total_revenue,
        )
        if not sent.success:
            raise RuntimeError(sent.message or "An unknown error occurred while sending the email.")
    except Exception as e:
        logger.warning("%s report failed: %s", report_type, e, exc_info=True)
        return ReportResult(
            success=False,
            message=str(e) or "An unexpected error occurred.",
            bill_count=count,
            total_revenue=revenue,
        )

    return ReportResult(
        success=True,
        message="Report generated and sent successfully.",
        bill_count=count,
        total_revenue=revenue,
    )
