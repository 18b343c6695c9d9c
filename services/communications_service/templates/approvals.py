"""
Bilingual in-app notification copy for the approval workflow.

Two directions:
- submission notices go from a learner to their reviewers
- decision notices go from a reviewer back to the learner

Every title is ``"<zh> / <en>"``; every body carries the Chinese text first,
then a blank line, then the English text.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class NoticeCopy:
    title: str
    content: str


def build_submit_content(label: str, zh: str, en: str) -> str:
    return f"学员 {label} {zh}\n\nStudent {label} {en}"


# ─── Submission copy ──────────────────────────────────────────────────
# kind -> (title, zh action, en action); ``{item}`` is the item label.
_SUBMISSION = {
    "course_access": (
        "课程申请 / Course request",
        "申请了课程 {item}。",
        "requested course {item}.",
    ),
    "file_access_requests": (
        "文件权限申请 / File access request",
        "申请了文件权限：{item}。",
        "requested file access: {item}.",
    ),
    "trade_log": (
        "交易日志提交 / Trade log submitted",
        "提交了交易日志。",
        "submitted a trade log.",
    ),
    "trade_strategy": (
        "交易策略提交 / Strategy submitted",
        "提交了交易策略。",
        "submitted a trade strategy.",
    ),
    "classic_trades": (
        "经典交易提交 / Classic trade submitted",
        "提交了经典交易。",
        "submitted a classic trade.",
    ),
    "weekly_summaries": (
        "周总结提交 / Weekly summary submitted",
        "提交了周总结：{item}。",
        "submitted a weekly summary: {item}.",
    ),
    "course_notes": (
        "课程总结提交 / Course summary submitted",
        "提交了课程总结：{item}。",
        "submitted a course summary: {item}.",
    ),
    "ladder_authorizations": (
        "天梯申请 / Ladder request",
        "提交了天梯申请。",
        "requested ladder access.",
    ),
}

_RESUBMIT_PREFIX = ("重新", "re-")


def submission_notice(
    topic: str, submitter_label: str, item_label: str = "", resubmitted: bool = False
) -> NoticeCopy:
    """Notice sent to reviewers when a learner submits or resubmits."""
    title, zh, en = _SUBMISSION[topic]
    zh = zh.format(item=item_label)
    en = en.format(item=item_label)
    if resubmitted:
        zh = _RESUBMIT_PREFIX[0] + zh
        en = _RESUBMIT_PREFIX[1] + en
    return NoticeCopy(title=title, content=build_submit_content(submitter_label, zh, en))


# ─── Decision copy ────────────────────────────────────────────────────


def _approved_rejected(
    zh_noun: str,
    en_noun: str,
    zh_title: str,
    en_title: str,
    decision: str,
    item_label: str,
    reason: Optional[str],
) -> NoticeCopy:
    if decision == "approved":
        return NoticeCopy(
            title=f"{zh_title}已通过 / {en_title} approved",
            content=(
                f"你的{zh_noun}已通过：{item_label}\n\n"
                f"Your {en_noun} has been approved: {item_label}"
            ),
        )
    reason = reason or "其他"
    return NoticeCopy(
        title=f"{zh_title}被拒绝 / {en_title} rejected",
        content=(
            f"你的{zh_noun}被拒绝：{item_label}\n原因：{reason}\n\n"
            f"Your {en_noun} was rejected: {item_label}\nReason: {reason}"
        ),
    )


def _reviewed_or_replied(
    zh_title: str, en_title: str, zh_noun: str, en_noun: str, note: Optional[str]
) -> NoticeCopy:
    if note:
        return NoticeCopy(
            title=f"{zh_title}已回复 / {en_title} replied",
            content=(
                f"你的{zh_noun}已回复：{note}\n\n"
                f"Your {en_noun} review note: {note}"
            ),
        )
    return NoticeCopy(
        title=f"{zh_title}已阅 / {en_title} reviewed",
        content=f"你的{zh_noun}已阅。\n\nYour {en_noun} has been reviewed.",
    )


_TRADE_TITLES = {
    "trade_log": ("交易日志", "Trade log"),
    "trade_strategy": ("交易策略", "Strategy"),
}


def _trade_decision(
    variant: str, decision: str, reason: Optional[str], note: Optional[str]
) -> NoticeCopy:
    zh_title, en_title = _TRADE_TITLES.get(variant, _TRADE_TITLES["trade_log"])
    if decision == "archived":
        return NoticeCopy(
            title=f"{zh_title}已存档 / {en_title} archived",
            content="你的提交已存档。\n\nYour submission has been archived.",
        )
    if decision == "rejected":
        reason = reason or "其他"
        return NoticeCopy(
            title=f"{zh_title}被拒绝 / {en_title} rejected",
            content=(
                f"你的提交被拒绝。\n原因：{reason}\n\n"
                f"Your submission was rejected.\nReason: {reason}"
            ),
        )
    if note:
        return NoticeCopy(
            title=f"{zh_title}已阅 / {en_title} reviewed",
            content=f"审批意见：{note}\n\nReview note: {note}",
        )
    return NoticeCopy(
        title=f"{zh_title}已阅 / {en_title} reviewed",
        content="你的提交已阅。\n\nYour submission has been reviewed.",
    )


def _ladder_decision(decision: str, reason: Optional[str]) -> NoticeCopy:
    if decision == "approved":
        return NoticeCopy(
            title="天梯申请已通过 / Ladder approved",
            content=(
                "你的天梯申请已通过，现在可以查看天梯。\n\n"
                "Your ladder request has been approved. You can view the ladder now."
            ),
        )
    reason = reason or "其他"
    return NoticeCopy(
        title="天梯申请被拒绝 / Ladder rejected",
        content=(
            f"你的天梯申请被拒绝。原因：{reason}\n\n"
            f"Your ladder request was rejected. Reason: {reason}"
        ),
    )


def decision_notice(
    kind: str,
    decision: str,
    item_label: str = "",
    reason: Optional[str] = None,
    note: Optional[str] = None,
    variant: Optional[str] = None,
) -> NoticeCopy:
    """Notice sent to the learner when a reviewer resolves an item.

    ``decision`` is the resulting status (approved, rejected, reviewed) or
    ``archived``. ``variant`` selects the trade submission type.
    """
    if kind == "course_access":
        return _approved_rejected(
            "课程申请", "course request", "课程申请", "Course",
            decision, item_label, reason,
        )
    if kind == "file_access_requests":
        return _approved_rejected(
            "文件权限申请", "file access request", "文件权限", "File access",
            decision, item_label, reason,
        )
    if kind == "trade_submissions":
        return _trade_decision(variant or "trade_log", decision, reason, note)
    if kind == "classic_trades":
        return _reviewed_or_replied(
            "经典交易", "Classic trade", "经典交易", "classic trade", note
        )
    if kind == "weekly_summaries":
        return _reviewed_or_replied(
            "周总结", "Weekly summary", "周总结", "weekly summary", note
        )
    if kind == "course_notes":
        return _reviewed_or_replied(
            "课程总结", "Course summary", f"{item_label}课程总结", "course summary", note
        )
    if kind == "ladder_authorizations":
        return _ladder_decision(decision, reason)
    raise KeyError(kind)
