import io

import pytest

from candle_fetch.candle_fetch import (
    Candle,
    OutputError,
    format_decimal,
    parse_ohlcv,
    write_csv,
)

HEADER = "timestamp,iso_time,open,high,low,close,volume"


class FailingStream(io.StringIO):
    """StringIO that raises BrokenPipeError once `fail_after` writes succeeded."""

    def __init__(self, fail_after: int, on_flush: bool = False) -> None:
        super().__init__()
        self.fail_after = fail_after
        self.on_flush = on_flush
        self.writes = 0

    def write(self, s: str) -> int:
        if not self.on_flush and self.writes >= self.fail_after:
            raise BrokenPipeError(32, "Broken pipe")
        self.writes += 1
        return super().write(s)

    def flush(self) -> None:
        if self.on_flush:
            # fail once, so close() at teardown can still flush
            self.on_flush = False
            raise BrokenPipeError(32, "Broken pipe")
        super().flush()


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (0.0, "0"),
        (-0.0, "-0"),
        (1.0, "1"),
        (-1.5, "-1.5"),
        (0.1, "0.1"),
        (60000.0, "60000"),
        (60321.5, "60321.5"),
        (1.2345678901234567, "1.2345678901234567"),
        (1e-7, "0.0000001"),
        (1.5e-10, "0.00000000015"),
        (1e21, "1000000000000000000000"),
        (123456789012.5, "123456789012.5"),
        (float("nan"), "NaN"),
        (float("inf"), "+Inf"),
        (float("-inf"), "-Inf"),
    ],
)
def test_format_decimal_pins_exact_strings(value: float, expected: str) -> None:
    assert format_decimal(value) == expected


def test_writes_header_and_one_row_per_candle(sample_records: list) -> None:
    out = io.StringIO()

    written = write_csv(parse_ohlcv(sample_records), stream=out)

    lines = out.getvalue().split("\n")
    assert written == 3
    assert lines[-1] == ""
    assert lines[:-1] == [
        HEADER,
        "1714521600000,2024-05-01T00:00:00Z,60321.5,60400,60210.1,60388.2,12.345",
        "1714521660000,2024-05-01T00:01:00Z,60388.2,60390,60300,60301,3",
        "1714521720000,2024-05-01T00:02:00Z,60301,60350.5,60290,60333.3,0.0001",
    ]


def test_row_timestamps_match_source_in_order() -> None:
    records = [[1714521600000 + i * 60_000, 1, 1, 1, 1, i] for i in range(25)]
    out = io.StringIO()

    write_csv(parse_ohlcv(records), stream=out)

    rows = out.getvalue().splitlines()
    assert len(rows) == len(records) + 1
    assert [int(r.split(",")[0]) for r in rows[1:]] == [r[0] for r in records]


def test_empty_candle_list_writes_header_only() -> None:
    out = io.StringIO()

    assert write_csv([], stream=out) == 0
    assert out.getvalue() == HEADER + "\n"


def test_defaults_to_stdout(capsys: pytest.CaptureFixture[str]) -> None:
    write_csv([Candle(1714521600000, 1.0, 2.0, 0.5, 1.5, 100.0)])

    assert capsys.readouterr().out == (
        HEADER + "\n" + "1714521600000,2024-05-01T00:00:00Z,1,2,0.5,1.5,100\n"
    )


def test_broken_pipe_mid_stream_keeps_written_rows(sample_records: list) -> None:
    # header + first row succeed, second row fails
    out = FailingStream(fail_after=2)

    with pytest.raises(OutputError, match="failed to write record #1") as exc_info:
        write_csv(parse_ohlcv(sample_records), stream=out)

    assert isinstance(exc_info.value.__cause__, BrokenPipeError)
    assert out.getvalue().splitlines() == [
        HEADER,
        "1714521600000,2024-05-01T00:00:00Z,60321.5,60400,60210.1,60388.2,12.345",
    ]


def test_header_write_failure() -> None:
    with pytest.raises(OutputError, match="failed to write header"):
        write_csv([], stream=FailingStream(fail_after=0))


def test_flush_failure_is_an_output_error(sample_records: list) -> None:
    with pytest.raises(OutputError):
        write_csv(parse_ohlcv(sample_records), stream=FailingStream(fail_after=0, on_flush=True))


def test_candle_datetime_is_utc() -> None:
    candle = Candle(1714521600500, 1.0, 1.0, 1.0, 1.0, 0.0)
    assert candle.datetime.isoformat() == "2024-05-01T00:00:00.500000+00:00"
