"""Tests for the engine tracer decorator."""

from decimal import Decimal

from materials_engines.tracer import compute_input_fingerprint, traced_engine
from materials_kernel.domain.dtos import MaterialKind


@traced_engine("test.double", "2.1", fingerprint_fields=("amount", "kind"))
def _double(amount, kind=MaterialKind.STEEL):
    return amount * 2


class TestTracedEngine:
    def test_result_passed_through(self):
        assert _double(Decimal("2.5")) == Decimal("5.0")

    def test_trace_record_emitted(self, captured_logs):
        _double(Decimal("1"))

        traces = [r for r in captured_logs() if r["message"] == "MATERIALS_ENGINE_TRACE"]
        assert len(traces) == 1
        trace = traces[0]
        assert trace["engine_name"] == "test.double"
        assert trace["engine_version"] == "2.1"
        assert len(trace["input_fingerprint"]) == 16
        assert trace["level"] == "DEBUG"

    def test_positional_and_keyword_fingerprint_alike(self, captured_logs):
        _double(Decimal("3"), MaterialKind.CEMENT)
        _double(amount=Decimal("3"), kind=MaterialKind.CEMENT)

        fps = [
            r["input_fingerprint"]
            for r in captured_logs()
            if r["message"] == "MATERIALS_ENGINE_TRACE"
        ]
        assert fps[0] == fps[1]


class TestFingerprint:
    def test_deterministic(self):
        args = {"kind": MaterialKind.STEEL, "amount": Decimal("5")}
        assert compute_input_fingerprint(("kind", "amount"), args) == (
            compute_input_fingerprint(("kind", "amount"), dict(args))
        )

    def test_sensitive_to_values(self):
        a = compute_input_fingerprint(("amount",), {"amount": Decimal("5")})
        b = compute_input_fingerprint(("amount",), {"amount": Decimal("6")})
        assert a != b

    def test_missing_field_is_null(self):
        assert compute_input_fingerprint(("x",), {}) == compute_input_fingerprint(
            ("x",), {"x": None},
        )
