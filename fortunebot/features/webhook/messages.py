"""User-visible reply texts for commands, redemption outcomes and access states."""

from datetime import datetime, timedelta, timezone
from typing import Optional

from fortunebot.models.entitlement import Entitlement, PlanKind

JST = timezone(timedelta(hours=9))

PLAN_LABELS = {
    PlanKind.NONE: "なし",
    PlanKind.TRIAL: "お試し鑑定（1回）",
    PlanKind.DAY_PASS: "1日鑑定パス",
    PlanKind.SUBSCRIPTION: "定期鑑定プラン",
}

MENU = (
    "🔮 占いメニュー\n"
    "・総合鑑定\n"
    "・恋愛/復縁/片想い\n"
    "・仕事/転職\n"
    "・金運\n"
    "・健康/生活リズム\n\n"
    "※「リセット」で履歴消去\n"
    "※「プラン確認」でご利用状況を表示\n"
    "※ご購入後は注文番号を送信すると鑑定が始まります"
)

RESET_DONE = "履歴をリセットしました。何を占いますか？"

GENERIC_APOLOGY = "システムエラーが発生しました。少し時間をおいて再試行してください。"


def _format_time(value: datetime) -> str:
    return value.astimezone(JST).strftime("%Y/%m/%d %H:%M")


def purchase_guide(shop_url: str) -> str:
    return (
        "🌙 鑑定のご利用にはご購入が必要です。\n"
        f"ご購入はこちらから💫\n👉 {shop_url}\n\n"
        "ご購入後、注文番号をこのトークに送信してください。"
    )


def expired(shop_url: str) -> str:
    return "⌛ ご利用期間が終了しました。\n\n" + purchase_guide(shop_url)


def repurchase(shop_url: str) -> str:
    return (
        "🔮 お試し鑑定はご利用済みです。ありがとうございました。\n"
        f"続けて鑑定をご希望の方はこちらから💫\n👉 {shop_url}"
    )


def granted(entitlement: Entitlement) -> str:
    label = PLAN_LABELS.get(entitlement.plan, entitlement.plan.value)
    lines = ["🌕ご購入が確認できました！", f"プラン：{label}"]
    if entitlement.expires_at is not None:
        lines.append(f"有効期限：{_format_time(entitlement.expires_at)}まで")
    if entitlement.plan == PlanKind.TRIAL:
        lines.append("1回分の鑑定をご利用いただけます。")
    lines.append("占いたいことをメッセージで送ってください🔮✨")
    return "\n".join(lines)


def status(entitlement: Optional[Entitlement], shop_url: str, now: datetime) -> str:
    if entitlement is None or entitlement.plan == PlanKind.NONE:
        return "現在ご利用中のプランはありません。\n\n" + purchase_guide(shop_url)
    label = PLAN_LABELS.get(entitlement.plan, entitlement.plan.value)
    lines = [f"ご利用中のプラン：{label}"]
    if entitlement.consumed:
        lines.append("状態：ご利用済み")
    elif entitlement.is_expired(now):
        lines.append("状態：期限切れ")
    else:
        lines.append("状態：ご利用可能")
    if entitlement.expires_at is not None:
        lines.append(f"有効期限：{_format_time(entitlement.expires_at)}まで")
    return "\n".join(lines)


ORDER_NOT_FOUND = (
    "ご入力の注文番号が見つかりませんでした。\n"
    "番号に誤りがないかご確認のうえ、もう一度送信してください。"
)

ORDER_NOT_PAID = (
    "ご注文のお支払いがまだ確認できません。\n"
    "お支払い完了後に、もう一度注文番号を送信してください。"
)

PRODUCT_UNIDENTIFIED = (
    "ご注文の商品を確認できませんでした。\n"
    "お手数ですが、ショップのお問い合わせ窓口までご連絡ください。"
)

ORDER_ALREADY_USED = "この注文番号はすでに使用されています。"

ORDER_OWNED_BY_ANOTHER = "この注文番号は別のアカウントで使用済みのため、ご利用いただけません。"

VERIFICATION_UNAVAILABLE = (
    "ただいまご購入情報を確認できません。\n"
    "少し時間をおいて再試行してください。"
)
