from data_designer_repetition_guard.core import (
    ALERT_POSTAMBLE,
    ALERT_PREAMBLE,
    ALERT_TITLE,
    AXES,
    SENSITIVITY_LEVELS,
    DetectedPattern,
    Hyperparameters,
    aggregate,
    build_alert,
    extract_dialogue_balance,
    extract_opening_signature,
    extract_paragraph_shape,
    extract_sentence_rhythm,
    format_alert,
    resolve_sensitivity,
)


SHORT_RHYTHM_SAMPLES = [
    "The cat sat. The dog ran. The bird flew.",
    "A man walked. A car passed. A bell rang.",
    "We ate lunch. They drank tea. You read books.",
]

WELL_SAMPLES = [
    "Well, that's interesting.\nThe river bends north here.",
    "Well, that's interesting.\nWe should look closer at this.",
    "Well, that's interesting.\nNobody expected the result.",
]

DIALOGUE_SAMPLE = (
    '"Hello there," she said.\n'
    '"How are you?" he asked.\n'
    '"Fine," she replied.\n'
    '"Good to hear," he said.\n'
    "The rain kept falling."
)

BRIDGE_TEXT = (
    "Why would anyone build a bridge there? Engineers argued about the soil for years "
    "before anyone listened to them carefully at all back then."
)

UNRELATED_SAMPLES = [
    BRIDGE_TEXT,
    "Certainly!\n\nThe market opened early. Prices rose fast. Traders shouted across the floor.",
    '"Run," she whispered, and the two of them slipped out through the kitchen door into '
    "the cold night air without a sound.\nNobody followed.",
]


class TestSentenceRhythm:
    def test_short_sentences(self):
        rhythm = extract_sentence_rhythm("The cat sat. The dog ran. The bird flew.")
        assert rhythm.pattern == "SSS"
        assert rhythm.rhythm == "SSS"
        assert rhythm.mean_words == 3

    def test_rhythm_is_truncated_pattern(self):
        text = (
            "It rained. The storm rolled across the valley all night. "
            "Nobody in the village slept because the wind kept hammering the shutters until dawn finally came. "
            "Then quiet."
        )
        rhythm = extract_sentence_rhythm(text)
        assert rhythm.pattern == "SMLS"
        assert rhythm.rhythm == "SML"

    def test_short_fragments_are_dropped(self):
        rhythm = extract_sentence_rhythm("Yes. The weather today is quite nice.")
        assert rhythm.pattern == "M"
        assert rhythm.mean_words == 6

    def test_runs_of_terminators_split_once(self):
        rhythm = extract_sentence_rhythm("What did you say?!? I said nothing at all...")
        assert rhythm.pattern == "SS"

    def test_no_sentences_returns_none(self):
        assert extract_sentence_rhythm("") is None
        assert extract_sentence_rhythm("Hi. Ok.") is None

    def test_custom_size_thresholds(self):
        hp = Hyperparameters(short_sentence_max_words=2, long_sentence_min_words=3)
        assert extract_sentence_rhythm("The cat sat. Go home now please.", hp).pattern == "LL"


class TestOpeningSignature:
    def test_filler_opener(self):
        opening = extract_opening_signature("Well, that's interesting.\nMore text follows.")
        assert opening.signature == "short-statement"
        assert opening.first_word == "well"
        assert opening.uses_filler is True

    def test_dialogue_opening(self):
        opening = extract_opening_signature('"Get out!" she shouted.')
        assert opening.signature == "short-dialogue"
        assert opening.first_word == "get"
        assert opening.uses_filler is False

    def test_signature_classes(self):
        cases = [
            ("Why?", "single-question"),
            ("Stop right there!", "short-exclamation"),
            ("And then the thing happened and", "medium-incomplete"),
            ("Wait...", "single-incomplete"),
            (
                "The lighthouse keeper had not spoken to another living soul in nearly three weeks.",
                "long-statement",
            ),
        ]
        for line, signature in cases:
            assert extract_opening_signature(line).signature == signature

    def test_closing_quote_after_terminator(self):
        assert extract_opening_signature('He said "yes."').signature == "short-statement"
        assert extract_opening_signature("He asked, “Are you sure?”").signature == "short-question"
        assert extract_opening_signature("She called it 'done.'").signature == "short-statement"

    def test_skips_leading_blank_lines(self):
        opening = extract_opening_signature("\n\n   \nIndeed it is.")
        assert opening.first_word == "indeed"
        assert opening.uses_filler is True

    def test_blank_text_returns_none(self):
        assert extract_opening_signature("   \n  ") is None


class TestParagraphShape:
    def test_sentence_counts_per_paragraph(self):
        shape = extract_paragraph_shape("First one here. Second sentence here.\n\nOnly one sentence here.")
        assert shape.shape == "2-1"
        assert shape.paragraph_count == 2

    def test_whitespace_only_separator_counts_as_break(self):
        shape = extract_paragraph_shape("Opening paragraph text.\n   \nClosing paragraph text.")
        assert shape.shape == "1-1"

    def test_single_paragraph_returns_none(self):
        assert extract_paragraph_shape("Just one paragraph. With two sentences.") is None


class TestDialogueBalance:
    def test_dialogue_heavy(self):
        balance = extract_dialogue_balance(DIALOGUE_SAMPLE)
        assert balance.style == "dialogue-heavy"
        assert (balance.dialogue_lines, balance.narrative_lines) == (4, 1)

    def test_even_split_is_narrative_heavy(self):
        balance = extract_dialogue_balance('"Go," he said.\nShe went.')
        assert balance.style == "narrative-heavy"

    def test_curly_quotes_count(self):
        assert extract_dialogue_balance("“Here,” she said.").style == "dialogue-heavy"

    def test_apostrophes_are_not_dialogue(self):
        assert extract_dialogue_balance("It's fine.\nThat's all there is.") is None


class TestSensitivity:
    def test_table(self):
        for level, window, threshold in [(1, 7, 4), (2, 5, 3), (3, 4, 2)]:
            policy = resolve_sensitivity(level)
            assert (policy.window_size, policy.threshold) == (window, threshold)

    def test_unknown_levels_fall_back_to_medium(self):
        for level in [0, 4, 99, None, True, "extreme"]:
            assert resolve_sensitivity(level).level == 2

    def test_names_and_numeric_strings(self):
        assert resolve_sensitivity("high").level == 3
        assert resolve_sensitivity(" Low ").level == 1
        assert resolve_sensitivity("3").level == 3

    def test_threshold_never_exceeds_window(self):
        for policy in SENSITIVITY_LEVELS.values():
            assert policy.threshold <= policy.window_size


class TestAggregate:
    def test_fewer_than_three_samples_yields_nothing(self):
        assert aggregate(SHORT_RHYTHM_SAMPLES[:2], AXES, threshold=2) == []

    def test_repeated_rhythm(self):
        patterns = aggregate(SHORT_RHYTHM_SAMPLES, ["rhythm"], threshold=3)
        assert patterns[0].kind == "rhythm"
        assert patterns[0].value == "SSS"
        assert patterns[0].count == 3
        assert all(p.axis == "rhythm" for p in patterns)

    def test_mean_length_buckets_by_five(self):
        samples = [
            "The old man walked slowly down to the harbor again.",
            "She counted every coin twice before paying the baker anything today.",
            "Our team finally shipped the release after a very long week.",
        ]
        patterns = aggregate(samples, ["rhythm"], threshold=3)
        buckets = [p for p in patterns if p.kind == "mean_length"]
        assert [(p.value, p.count) for p in buckets] == [("10", 3)]
        assert buckets[0].description == "Average sentence length of 10-14 words"

    def test_single_symbol_rhythm_is_ignored(self):
        samples = ["The weather today is quite nice."] * 3
        patterns = aggregate(samples, ["rhythm"], threshold=3)
        assert [p.kind for p in patterns] == ["mean_length"]
        assert patterns[0].value == "5"

    def test_repeated_filler_opening_word(self):
        patterns = aggregate(WELL_SAMPLES, ["opening"], threshold=3)
        words = [p for p in patterns if p.kind == "opening_word"]
        assert len(words) == 1
        assert words[0].value == "well"
        assert words[0].count == 3
        assert words[0].description == 'Repeated opening word: "well"'

    def test_non_filler_words_are_not_counted(self):
        samples = ["Honestly, this is fine.", "Honestly, that is odd.", "Honestly, it went well."]
        patterns = aggregate(samples, ["opening"], threshold=3)
        assert [p.kind for p in patterns] == ["opening_signature"]

    def test_repeated_paragraph_shape(self):
        samples = ["First one here. Second sentence here.\n\nOnly one sentence here."] * 3
        patterns = aggregate(samples, ["paragraph"], threshold=3)
        assert [(p.kind, p.value, p.count) for p in patterns] == [("paragraph_shape", "2-1", 3)]

    def test_dialogue_heavy(self):
        patterns = aggregate([DIALOGUE_SAMPLE] * 3, ["dialogue"], threshold=3)
        assert [(p.kind, p.value, p.count) for p in patterns] == [("dialogue_balance", "dialogue-heavy", 3)]

    def test_unrelated_samples_yield_nothing(self):
        assert aggregate(UNRELATED_SAMPLES, AXES, threshold=3) == []

    def test_disabled_axes_are_skipped(self):
        assert aggregate(WELL_SAMPLES, ["dialogue", "paragraph"], threshold=3) == []

    def test_findings_follow_axis_order(self):
        patterns = aggregate([DIALOGUE_SAMPLE] * 3, list(reversed(AXES)), threshold=3)
        order = [AXES.index(p.axis) for p in patterns]
        assert order == sorted(order)
        assert patterns[-1].kind == "dialogue_balance"

    def test_values_follow_discovery_order(self):
        window = [SHORT_RHYTHM_SAMPLES[0], BRIDGE_TEXT, SHORT_RHYTHM_SAMPLES[1], BRIDGE_TEXT]
        rhythms = [p.value for p in aggregate(window, ["rhythm"], threshold=2) if p.kind == "rhythm"]
        assert rhythms == ["SSS", "ML"]
        rhythms = [p.value for p in aggregate(window[::-1], ["rhythm"], threshold=2) if p.kind == "rhythm"]
        assert rhythms == ["ML", "SSS"]


class TestFormatAlert:
    def test_empty_returns_none(self):
        assert format_alert([]) is None
        assert build_alert([]) is None

    def test_renders_bullets(self):
        patterns = aggregate(WELL_SAMPLES, ["opening"], threshold=3)
        body = format_alert(patterns)
        lines = body.split("\n")
        assert lines[0] == ALERT_PREAMBLE
        assert lines[-1] == ALERT_POSTAMBLE
        assert '• Repeated opening word: "well" (3 times)' in lines
        assert len(lines) == len(patterns) + 2

    def test_payload_shape(self):
        pattern = DetectedPattern(axis="dialogue", kind="dialogue_balance", value="dialogue-heavy", count=3,
                                  description="Consistently dialogue-heavy responses")
        alert = build_alert([pattern])
        assert alert.title == ALERT_TITLE
        payload = alert.to_payload()
        assert set(payload.keys()) == {"title", "body", "patterns"}
        assert payload["patterns"][0] == {
            "type": "DetectedPattern",
            "axis": "dialogue",
            "kind": "dialogue_balance",
            "value": "dialogue-heavy",
            "count": 3,
            "description": "Consistently dialogue-heavy responses",
        }
