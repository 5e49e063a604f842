from __future__ import annotations

import random

from conftest import sse_body, token_event

from beet.streaming.sse_decoder import ProviderEventDecoder, Terminal, Token, extract_text


def decode_chunks(chunks: list[bytes]) -> list:
    decoder = ProviderEventDecoder()
    events = []
    for chunk in chunks:
        events.extend(decoder.feed(chunk))
    events.extend(decoder.finish())
    return events


def split_at(data: bytes, points: list[int]) -> list[bytes]:
    bounds = [0, *sorted(points), len(data)]
    return [data[start:end] for start, end in zip(bounds, bounds[1:])]


def test_decodes_tokens_and_terminal() -> None:
    events = decode_chunks([sse_body("Hel", "lo!")])

    assert events == [Token("Hel"), Token("lo!"), Terminal()]


def test_every_two_way_split_decodes_identically() -> None:
    body = sse_body("Hel", "lo", " wörld 👋", "\nnext line")
    expected = decode_chunks([body])

    for point in range(len(body) + 1):
        assert decode_chunks(split_at(body, [point])) == expected


def test_random_multi_way_splits_decode_identically() -> None:
    body = sse_body(*[f"tok{i} é" for i in range(20)])
    expected = decode_chunks([body])
    rng = random.Random(1234)

    for _ in range(200):
        n_points = rng.randint(1, 40)
        points = [rng.randint(0, len(body)) for _ in range(n_points)]
        assert decode_chunks(split_at(body, points)) == expected


def test_byte_at_a_time_keeps_multibyte_characters() -> None:
    body = sse_body("日本語", "🙂")

    events = decode_chunks([body[i:i + 1] for i in range(len(body))])

    assert events == [Token("日本語"), Token("🙂"), Terminal()]


def test_nothing_is_emitted_after_terminal() -> None:
    decoder = ProviderEventDecoder()

    events = decoder.feed(sse_body("a") + token_event("b").encode())
    later = decoder.feed(token_event("c").encode()) + decoder.finish()

    assert events == [Token("a"), Terminal()]
    assert later == []
    assert decoder.terminated


def test_malformed_payload_between_valid_ones_is_skipped() -> None:
    body = (token_event("one") + "data: {not json\n\n" + token_event("two") + "data: [DONE]\n\n").encode()
    decoder = ProviderEventDecoder()

    events = decoder.feed(body)

    assert events == [Token("one"), Token("two"), Terminal()]
    assert decoder.stats.noise == 1
    assert decoder.stats.tokens == 2
    assert not decoder.stats.only_noise


def test_role_only_and_empty_deltas_are_skipped() -> None:
    body = (
        'data: {"choices": [{"index": 0, "delta": {"role": "assistant"}}]}\n\n'
        'data: {"choices": [{"index": 0, "delta": {"content": ""}}]}\n\n'
        'data: {"choices": []}\n\n'
        + token_event("hi")
    ).encode()
    decoder = ProviderEventDecoder()

    events = decoder.feed(body)

    assert events == [Token("hi")]
    assert decoder.stats.empty_events == 3


def test_non_data_lines_and_crlf_are_tolerated() -> None:
    body = (
        ": keep-alive\r\n"
        "event: message\r\n"
        'data:{"choices": [{"delta": {"content": "x"}}]}\r\n\r\n'
        "DATA: [DONE]\r\n"
        "data: [DONE]\r\n"
    ).encode()

    assert decode_chunks([body]) == [Token("x"), Terminal()]


def test_finish_flushes_unterminated_last_line() -> None:
    decoder = ProviderEventDecoder()

    assert decoder.feed(b"data: [DONE]") == []
    assert decoder.finish() == [Terminal()]


def test_stream_without_done_has_no_terminal() -> None:
    events = decode_chunks([sse_body("partial", done=False)])

    assert events == [Token("partial")]


def test_only_noise_is_reported() -> None:
    decoder = ProviderEventDecoder()

    decoder.feed(b"data: garbage\n\ndata: more garbage\n\n")

    assert decoder.stats.only_noise
    assert decoder.stats.noise == 2


def test_extract_text_ignores_unexpected_shapes() -> None:
    assert extract_text([]) is None
    assert extract_text({"choices": "nope"}) is None
    assert extract_text({"choices": [{"delta": {"content": 5}}]}) is None
    assert extract_text({"choices": [{"delta": {"content": "ok"}}]}) == "ok"
