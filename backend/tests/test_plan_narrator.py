"""Plan reason composition, custom-request outcomes and per-slot reasons."""
import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from models.conditions import MovementPreference
from models.plan import ScheduleItem
from services.plan_narrator import (
    CUSTOM_EXCLUDED,
    CUSTOM_SATISFIED,
    CUSTOM_SHIFTED,
    NarrationFacts,
    evaluate_custom_outcome,
    narrate,
    next_step_phrase,
    plan_summary,
    reason_and_tags,
)


def test_full_narration_contains_every_clause():
    text = narrate(NarrationFacts(
        phase="first",
        time_slot="lunch",
        mood="relax",
        movement=MovementPreference.for_style("single_area"),
        budget="medium",
        ng_conditions=["outdoor", "crowd"],
        custom_request="19時に浅草寺に行きたい",
        custom_outcome=CUSTOM_SATISFIED,
    ))

    assert text.startswith("初めてのデートということで、落ち着いて会話できる場所を中心に選びました。")
    assert "ランチタイムを中心としたプランです" in text
    assert "今日の気分はリラックスした雰囲気とのことで" in text
    assert "移動方針は「ひとつの街でゆっくり」。" in text
    assert "予算は程よいな7000-10000円程度で設定しています" in text
    assert "屋外、混雑は避けるよう配慮しています" in text
    assert "「19時に浅草寺に行きたい」をスケジュール内に反映しています" in text
    assert text.endswith("。")


def test_missing_facts_omit_their_clauses():
    text = narrate(NarrationFacts(time_slot="dinner"))
    assert text == "ディナータイムを中心としたプランです。"
    assert narrate(NarrationFacts()) == ""


def test_custom_outcome_phrasing():
    shifted = narrate(NarrationFacts(custom_request="夜景", custom_outcome=CUSTOM_SHIFTED))
    assert "近い時間帯で提案しています" in shifted

    excluded = narrate(NarrationFacts(custom_request="箱根", custom_outcome=CUSTOM_EXCLUDED))
    assert "今回はプランに含められませんでした" in excluded


def test_adjustment_suffix():
    text = narrate(NarrationFacts(phase="casual", adjustment="もう少し安く"))
    assert text.endswith("\n\n✨ 調整内容「もう少し安く」を反映しました！")


def test_evaluate_custom_outcome():
    on_time = ScheduleItem(time="19:00", type="custom", is_custom=True, preferred_start_minutes=19 * 60)
    near = ScheduleItem(time="19:20", type="custom", is_custom=True, preferred_start_minutes=19 * 60)
    late = ScheduleItem(time="20:10", type="custom", is_custom=True, preferred_start_minutes=19 * 60)
    lunch = ScheduleItem(time="12:00", type="lunch")

    assert evaluate_custom_outcome([lunch, on_time]) == CUSTOM_SATISFIED
    assert evaluate_custom_outcome([lunch, near]) == CUSTOM_SATISFIED, "20 minutes is within tolerance"
    assert evaluate_custom_outcome([lunch, late]) == CUSTOM_SHIFTED
    assert evaluate_custom_outcome([lunch]) == CUSTOM_EXCLUDED
    assert evaluate_custom_outcome([lunch], bookend_applied=True) == CUSTOM_SATISFIED


def test_reason_and_tags():
    reason, tags = reason_and_tags("lunch", "first", None, "medium")
    assert tags == ["初デート向け", "会話しやすい"]

    reason, tags = reason_and_tags("walk", "second", "romantic", "medium")
    assert tags == ["ロマンチック", "雰囲気◎"], "Walks share the activity reasons"

    reason, tags = reason_and_tags("dinner", "anniversary", "romantic", "high")
    assert reason == "特別な時間を過ごせる高級感のある場所を選びました", "High budget wins for dinner"

    reason, tags = reason_and_tags("cafe", "casual", None, "low")
    assert tags == ["おしゃれ", "リフレッシュ"]


def test_summary_and_next_step_fall_back_to_casual():
    assert plan_summary("anniversary") == "記念日を彩る特別なデートプラン"
    assert plan_summary("casual") == "カジュアルに楽しむデートプラン"
    assert next_step_phrase("first") == "今日は本当に楽しかった。また会いたい。"
    assert next_step_phrase("casual") == "また気軽に会おうね。"
