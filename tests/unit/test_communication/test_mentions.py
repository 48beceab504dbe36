"""Tests for @mention parsing."""

from multi_llm_chat.communication import parse_mentions


def test_mentions_resolve_case_insensitively_in_order(make_participant):
    participants = [make_participant("gpt", "GPT"), make_participant("claude", "Claude")]

    mentions = parse_mentions("@claude what do you think? cc @GPT and @nobody", participants)

    assert [m.model_id for m in mentions] == ["claude", "gpt"]
    assert mentions[0].display_name == "Claude"
    assert mentions[0].full_mention == "@claude"
    assert mentions[0].start_index == 0
    assert mentions[0].end_index == 7
    assert mentions[1].full_mention == "@GPT"


def test_hyphenated_names_and_unknown_tokens(make_participant):
    participants = [
        make_participant("gpt-4", "gpt-4"),
        make_participant("claude", "claude"),
        make_participant("llama", "llama"),
    ]

    mentions = parse_mentions("@gpt-4 and @CLAUDE, not @NonExistent", participants)

    assert [m.model_id for m in mentions] == ["gpt-4", "claude"]


def test_mentions_match_participant_ids_too(make_participant):
    participants = [make_participant("llama-3", "Llama")]

    mentions = parse_mentions("hey @llama-3", participants)

    assert [m.model_id for m in mentions] == ["llama-3"]


def test_display_name_wins_over_another_participants_id(make_participant):
    participants = [make_participant("alpha", "Beta"), make_participant("beta", "Gamma")]

    mentions = parse_mentions("@beta", participants)

    assert [m.model_id for m in mentions] == ["alpha"]


def test_no_mentions_without_known_names(make_participant):
    assert parse_mentions("email me at someone@example.com", [make_participant("gpt")]) == []
    assert parse_mentions("", [make_participant("gpt")]) == []
