"""
Tests for the step table and the personalized content resolver.
"""
from __future__ import annotations

from app.quiz import QUIZ_STEPS, QuizStore, get_personalized_content
from app.quiz.content import (
    DEFAULT_OFFER_DESCRIPTION,
    LEAD_FORM,
    PROMISE_EXPERIENCED,
    PROMISE_HEAVY_REMEDIOS,
    TESTIMONIAL_HEAVY_REMEDIOS,
    TESTIMONIAL_HIGH_ANSIEDADE,
    UNKNOWN_STEP_TITLE,
    option_values,
)
from app.quiz.steps import STEP_TYPES, Diagnostico


def state_with(**answers):
    store = QuizStore()
    for name, value in answers.items():
        store.set_answer(name, value)
    return store.get_state()


class TestStepTable:
    def test_every_step_present(self):
        assert sorted(QUIZ_STEPS) == list(range(1, 19))

    def test_types_match_engine_table(self):
        for step, content in QUIZ_STEPS.items():
            assert content.type == STEP_TYPES[step]

    def test_options_match_answer_sets(self):
        assert option_values(4) == [d.value for d in Diagnostico]

    def test_multi_select_steps_need_one_selection(self):
        for step in (9, 10, 11):
            assert QUIZ_STEPS[step].validation.min_selections == 1

    def test_lead_form_has_hidden_honeypot(self):
        assert LEAD_FORM["website"]["hidden"] is True

    def test_to_dict_shape(self):
        data = QUIZ_STEPS[2].to_dict()

        assert data["type"] == "single_choice"
        assert data["options"][0]["autoAdvance"] is True


class TestPersonalization:
    def test_name_interpolated(self):
        content = get_personalized_content(15, state_with(nome="Joana"))
        assert content.title.startswith("Joana, sua jornada")

    def test_token_left_without_name(self):
        content = get_personalized_content(15, state_with())
        assert "{{nome}}" in content.title

    def test_table_not_mutated(self):
        get_personalized_content(18, state_with(nome="Joana"))
        assert "{{nome}}" in QUIZ_STEPS[18].title

    def test_testimonial_prefers_remedies_over_anxiety(self):
        state = state_with(remedios="frequente", ansiedade="sempre")
        assert get_personalized_content(12, state).content == TESTIMONIAL_HEAVY_REMEDIOS

    def test_testimonial_for_anxiety(self):
        state = state_with(ansiedade="muitas")
        assert get_personalized_content(12, state).content == TESTIMONIAL_HIGH_ANSIEDADE

    def test_default_testimonial(self):
        assert get_personalized_content(12, state_with()).content == QUIZ_STEPS[12].content

    def test_promise_variants(self):
        assert get_personalized_content(15, state_with(remedios="frequente")).content == PROMISE_HEAVY_REMEDIOS
        assert get_personalized_content(15, state_with(conhecimento="tentei")).content == PROMISE_EXPERIENCED

    def test_offer_description_by_goal(self):
        content = get_personalized_content(18, state_with(direcionamento="energia"))
        assert content.content == "Programa focado em acordar com energia. Acesso imediato por apenas R$ 67."

    def test_offer_default_description(self):
        content = get_personalized_content(18, state_with(direcionamento="profundo"))
        assert content.content == f"{DEFAULT_OFFER_DESCRIPTION}. Acesso imediato por apenas R$ 67."

    def test_unknown_step(self):
        content = get_personalized_content(99, state_with())

        assert content.title == UNKNOWN_STEP_TITLE
        assert content.type is None
        assert content.to_dict()["type"] is None
