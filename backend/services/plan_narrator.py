"""
Natural-language text for a plan: the overall plan reason, per-slot reasons
and tags, and the phase-specific summary / next-step phrase.

Usage:
    from services.plan_narrator import NarrationFacts, narrate

    text = narrate(NarrationFacts(phase="first", time_slot="lunch", budget="medium"))
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from config.settings import settings
from models.conditions import MovementPreference
from models.plan import ScheduleItem
from utils.time_utils import to_minutes

# ---------------------------------------------------------------------------
# Display names
# ---------------------------------------------------------------------------
BUDGET_NAMES = {"low": "カジュアル", "medium": "程よい", "high": "特別な"}
PHASE_NAMES = {
    "first": "初めてのデート",
    "second": "2〜3回目のデート",
    "anniversary": "記念日のデート",
    "casual": "カジュアルなデート",
}
PHASE_DESCRIPTIONS = {
    "first": "落ち着いて会話できる場所を中心に",
    "second": "一緒に楽しめるアクティビティを多めに",
    "anniversary": "特別な時間を過ごせる場所を",
    "casual": "気軽に楽しめる場所を",
}
TIME_SLOT_NAMES = {"lunch": "ランチタイム", "dinner": "ディナータイム", "halfday": "半日", "fullday": "1日"}
MOOD_NAMES = {
    "relax": "リラックスした雰囲気",
    "active": "アクティブな体験",
    "romantic": "ロマンチックな雰囲気",
    "casual": "気軽な雰囲気",
}
NG_NAMES = {
    "outdoor": "屋外",
    "indoor": "屋内のみ",
    "crowd": "混雑",
    "quiet": "静かすぎる場所",
    "walk": "長時間歩く",
    "rain": "雨天不可",
}

PLAN_SUMMARIES = {
    "first": "落ち着いて会話しやすい初デート向けプラン",
    "second": "より親密になる2〜3回目デート向けプラン",
    "anniversary": "記念日を彩る特別なデートプラン",
}
NEXT_STEP_PHRASES = {
    "first": "今日は本当に楽しかった。また会いたい。",
    "second": "この前よりも君のこともっと知りたいな。",
    "anniversary": "これからもずっと一緒にいたいね。",
}
ADJUSTABLE_POINTS = ["予算", "所要時間", "屋内/屋外", "グルメのジャンル"]
CONVERSATION_TOPICS = ["最近やってみたいこと", "子どもの頃の思い出", "お互いの家族について"]

# Custom-request outcomes
CUSTOM_SATISFIED = "satisfied"
CUSTOM_SHIFTED = "shifted"
CUSTOM_EXCLUDED = "excluded"


@dataclass
class NarrationFacts:
    """Facts the plan reason is written from. Missing facts omit their clause."""

    phase: Optional[str] = None
    time_slot: Optional[str] = None
    mood: Optional[str] = None
    movement: Optional[MovementPreference] = None
    budget: Optional[str] = None
    ng_conditions: List[str] = field(default_factory=list)
    custom_request: Optional[str] = None
    custom_outcome: Optional[str] = None
    adjustment: Optional[str] = None


def narrate(facts: NarrationFacts) -> str:
    """Compose the plan reason from the facts, clause by clause."""
    clauses: List[str] = []

    if facts.phase:
        clauses.append(
            f"{PHASE_NAMES.get(facts.phase, 'デート')}ということで、"
            f"{PHASE_DESCRIPTIONS.get(facts.phase, '楽しめる場所を')}選びました"
        )
    if facts.time_slot:
        clauses.append(f"{TIME_SLOT_NAMES.get(facts.time_slot, facts.time_slot)}を中心としたプランです")
    if facts.mood:
        clauses.append(
            f"今日の気分は{MOOD_NAMES.get(facts.mood, facts.mood)}とのことで、それに合わせたスポットを選びました"
        )
    if facts.movement and facts.movement.label:
        focus = facts.movement.focus or "移動時間を抑えて巡れるように構成しました"
        clauses.append(f"移動方針は「{facts.movement.label}」。{focus}")
    if facts.budget:
        cost = settings.PLAN_COST_RANGES.get(facts.budget, "")
        clauses.append(f"予算は{BUDGET_NAMES.get(facts.budget, '')}な{cost}円程度で設定しています")
    if facts.ng_conditions:
        ng_list = "、".join(NG_NAMES.get(ng, ng) for ng in facts.ng_conditions)
        clauses.append(f"{ng_list}は避けるよう配慮しています")
    if facts.custom_request and facts.custom_outcome:
        clauses.append(_custom_clause(facts.custom_request, facts.custom_outcome))

    text = "。".join(clauses) + "。" if clauses else ""
    if facts.adjustment:
        text += f"\n\n✨ 調整内容「{facts.adjustment}」を反映しました！"
    return text


def _custom_clause(request: str, outcome: str) -> str:
    if outcome == CUSTOM_SATISFIED:
        return f"自由入力のリクエスト「{request}」をスケジュール内に反映しています"
    if outcome == CUSTOM_SHIFTED:
        return f"自由入力のリクエスト「{request}」は希望時刻ちょうどには難しいため、近い時間帯で提案しています"
    return f"自由入力のリクエスト「{request}」はデートエリアと離れているため、今回はプランに含められませんでした"


def evaluate_custom_outcome(schedule: List[ScheduleItem], bookend_applied: bool = False) -> str:
    """
    How well the custom request made it into the final schedule.

    A meeting/farewell override counts as satisfied.  Otherwise the custom
    item must be present; it is satisfied when some custom item starts within
    the tolerance of its preferred time.
    """
    if bookend_applied:
        return CUSTOM_SATISFIED
    custom_items = [item for item in schedule if item.is_custom]
    if not custom_items:
        return CUSTOM_EXCLUDED

    tolerance = settings.CUSTOM_TIME_TOLERANCE_MIN
    for item in custom_items:
        if item.preferred_start_minutes is None:
            return CUSTOM_SATISFIED
        actual = to_minutes(item.time)
        if actual is not None and abs(actual - item.preferred_start_minutes) <= tolerance:
            return CUSTOM_SATISFIED
    return CUSTOM_SHIFTED


def reason_and_tags(slot_type: str, phase: str, mood: Optional[str], budget: str) -> Tuple[str, List[str]]:
    """Short reason and tags explaining why a venue fits its slot."""
    if slot_type == "lunch":
        if phase == "first":
            return "初対面でも会話しやすい落ち着いた環境を選びました", ["初デート向け", "会話しやすい"]
        if phase == "anniversary":
            return "記念日にふさわしい特別な雰囲気のお店を選びました", ["記念日", "特別感"]
        if phase == "casual":
            return "カジュアルに楽しめる雰囲気のお店を選びました", ["カジュアル", "気軽"]
        return "リラックスして会話を楽しめる場所を選びました", ["リラックス", "会話向き"]

    if slot_type in ("activity", "walk"):
        if mood == "active":
            return "アクティブに楽しめる体験を重視しました", ["アクティブ", "体験重視"]
        if mood == "romantic":
            return "ロマンチックな雰囲気を楽しめる場所を選びました", ["ロマンチック", "雰囲気◎"]
        if mood == "relax":
            return "ゆったりと落ち着いて楽しめる場所を選びました", ["リラックス", "落ち着き"]
        return "一緒に楽しめる体験を重視しました", ["楽しめる", "体験"]

    if slot_type == "cafe":
        if phase == "anniversary":
            return "記念日らしい上質な空間で特別な時間を", ["記念日", "上質"]
        if mood == "romantic":
            return "雰囲気のある空間でゆっくり過ごせます", ["雰囲気◎", "ゆったり"]
        return "おしゃれな空間でリフレッシュできる場所を選びました", ["おしゃれ", "リフレッシュ"]

    if slot_type == "dinner":
        if budget == "high":
            return "特別な時間を過ごせる高級感のある場所を選びました", ["高級感", "特別"]
        if phase == "anniversary":
            return "記念日を彩る素敵なディナーを楽しめます", ["記念日", "ディナー"]
        if mood == "romantic":
            return "ロマンチックな雰囲気でゆっくり関係を深められます", ["ロマンチック", "落ち着き"]
        return "ゆったりとした時間で会話を楽しめる場所を選びました", ["ゆったり", "会話向き"]

    return "楽しい時間を過ごせる場所を選びました", []


def plan_summary(phase: str) -> str:
    return PLAN_SUMMARIES.get(phase, "カジュアルに楽しむデートプラン")


def next_step_phrase(phase: str) -> str:
    return NEXT_STEP_PHRASES.get(phase, "また気軽に会おうね。")
