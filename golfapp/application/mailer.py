"""
Transactional e-mail via Resend.

Plain-text messages only. Callers treat delivery as best effort: a failed
send is logged by the caller and never rolls back the business operation.
"""
import logging
from datetime import date, datetime, timedelta

import resend

from golfapp.config import get_settings
from golfapp.domain.plan import plan_label
from golfapp.domain.refund import RefundCalculation
from golfapp.utils.money import format_yen

logger = logging.getLogger(__name__)

APP_NAME = "上手くなる気がするぅぅぅ"


def send_email(to: list[str], subject: str, text: str) -> str | None:
    """
    Send a plain-text e-mail.

    Returns the Resend message id, or None when RESEND_API_KEY is not configured.
    Raises whatever the Resend SDK raises on delivery failure.
    """
    settings = get_settings()
    if not settings.RESEND_API_KEY:
        logger.warning("RESEND_API_KEY not configured, skipping email to %s", ", ".join(to))
        return None

    resend.api_key = settings.RESEND_API_KEY
    response = resend.Emails.send({
        "from": settings.EMAIL_FROM,
        "to": to,
        "subject": subject,
        "text": text,
    })
    message_id = response.get("id") if isinstance(response, dict) else None
    logger.info("Email sent to %s (id=%s)", ", ".join(to), message_id)
    return message_id


def _format_date(d: date) -> str:
    return f"{d.year}/{d.month}/{d.day}"


def build_cancellation_request_notice(
    user_name: str,
    user_email: str,
    plan: str,
    reason: str | None,
    created_at: datetime,
) -> tuple[str, str]:
    """Admin notification for a new cancellation request. Returns (subject, text)."""
    subject = f"【{APP_NAME}】サブスクリプション解約申請"
    text = (
        "管理者様\n\n"
        "ユーザーからサブスクリプションの解約申請がありました。\n\n"
        f"申請日時: {created_at.strftime('%Y/%m/%d %H:%M')}\n"
        f"ユーザー名: {user_name}\n"
        f"メールアドレス: {user_email}\n"
        f"契約プラン: {plan_label(plan)}\n\n"
        f"解約理由:\n{reason or '理由の記載なし'}\n\n"
        "管理画面から解約処理を実施してください。\n"
    )
    return subject, text


def build_cancellation_confirmed_notice(plan: str, calc: RefundCalculation) -> tuple[str, str]:
    """User notice once an admin approves the cancellation. Returns (subject, text)."""
    subject = f"【{APP_NAME}】サブスクリプション解約確定のお知らせ"
    stop_date = calc.service_end_date + timedelta(days=1)

    lines = [
        f"いつも{APP_NAME}をご利用いただき、ありがとうございます。",
        "サブスクリプションの解約が確定いたしました。",
        "",
        f"プラン: {plan_label(plan)}",
        f"サービス利用終了日: {_format_date(calc.service_end_date)}",
        f"利用停止日: {_format_date(stop_date)}",
    ]
    if calc.should_refund and calc.refund_amount > 0:
        lines += [
            f"使用期間: {calc.used_months}ヶ月分（{format_yen(calc.used_amount)}）",
            f"返金額: {format_yen(calc.refund_amount)}",
            "返金処理には5〜10営業日程度かかる場合があります。",
        ]
    elif calc.should_refund:
        lines.append(f"使用期間が{calc.used_months}ヶ月分に達しているため、返金はございません。")
    else:
        lines.append("月額プランのため、返金はございません。")
    lines += ["", f"今後とも{APP_NAME}をよろしくお願いいたします。"]
    return subject, "\n".join(lines) + "\n"
