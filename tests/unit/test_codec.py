"""Tests for the Variant <-> JSON value codec."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from asyncua import ua
from fakes import obj, variable

from uaweb_gateway.adapters.southbound.opcua_client.codec import ValueCodec, to_json_value
from uaweb_gateway.domain.errors import WriteRejected


@pytest.fixture()
def codec() -> ValueCodec:
    return ValueCodec()


class TestToJsonValue:
    def test_scalars_pass_through(self) -> None:
        assert to_json_value(3.5) == 3.5
        assert to_json_value(True) is True
        assert to_json_value("x") == "x"
        assert to_json_value(None) is None

    def test_datetime_is_iso(self) -> None:
        stamp = datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)
        assert to_json_value(stamp) == "2024-01-02T03:04:05+00:00"

    def test_bytes_are_base64(self) -> None:
        assert to_json_value(b"\x00\x01") == "AAE="

    def test_structured_types(self) -> None:
        assert to_json_value(ua.LocalizedText("Pump")) == "Pump"
        assert to_json_value(ua.QualifiedName("Level", 2)) == "2:Level"
        assert to_json_value(ua.NodeId(85, 0)) == "ns=0;i=85"

    def test_lists_are_converted_elementwise(self) -> None:
        assert to_json_value([ua.LocalizedText("a"), 1]) == ["a", 1]


class TestDecode:
    def test_decode_uses_declared_type(self, codec: ValueCodec) -> None:
        descriptor = variable("ns=2;s=Temp", 21.5, ua.VariantType.Double)
        decoded = codec.decode(descriptor)
        assert decoded.value == 21.5
        assert decoded.type_name == "Double"
        assert decoded.is_array is False

    def test_decode_explicit_variant(self, codec: ValueCodec) -> None:
        descriptor = variable("ns=2;s=Temp", 21.5, ua.VariantType.Double)
        decoded = codec.decode(descriptor, ua.Variant(22.0, ua.VariantType.Double))
        assert decoded.value == 22.0

    def test_decode_array(self, codec: ValueCodec) -> None:
        descriptor = variable("ns=2;s=Arr", [1, 2, 3], ua.VariantType.Int32)
        decoded = codec.decode(descriptor)
        assert decoded.value == [1, 2, 3]
        assert decoded.is_array is True

    def test_decode_without_value(self, codec: ValueCodec) -> None:
        decoded = codec.decode(obj("ns=2;s=Folder"))
        assert decoded.value is None
        assert decoded.type_name == "Null"

    def test_non_builtin_type_falls_back_to_variant_type(self, codec: ValueCodec) -> None:
        descriptor = variable(
            "ns=2;s=Mode",
            3,
            ua.VariantType.Int32,
            data_type=ua.NodeId(3001, 2),
        )
        assert codec.decode(descriptor).type_name == "Int32"


class TestEncode:
    def test_encode_double_accepts_int(self, codec: ValueCodec) -> None:
        descriptor = variable("ns=2;s=Temp", 21.5, ua.VariantType.Double)
        variant = codec.encode(descriptor, 20)
        assert variant.VariantType == ua.VariantType.Double
        assert variant.Value == 20.0

    def test_encode_string_into_number_is_type_mismatch(self, codec: ValueCodec) -> None:
        descriptor = variable("ns=2;s=Temp", 21.5, ua.VariantType.Double)
        with pytest.raises(WriteRejected) as exc_info:
            codec.encode(descriptor, "hot")
        assert exc_info.value.is_type_mismatch
        assert "Wrong Type Error" in str(exc_info.value)

    def test_encode_integer_out_of_range(self, codec: ValueCodec) -> None:
        descriptor = variable("ns=2;s=Small", 1, ua.VariantType.Byte)
        with pytest.raises(WriteRejected):
            codec.encode(descriptor, 300)

    def test_encode_bool_is_not_an_integer(self, codec: ValueCodec) -> None:
        descriptor = variable("ns=2;s=Count", 1, ua.VariantType.Int32)
        with pytest.raises(WriteRejected):
            codec.encode(descriptor, True)

    def test_encode_list(self, codec: ValueCodec) -> None:
        descriptor = variable("ns=2;s=Arr", [1, 2], ua.VariantType.Int16)
        variant = codec.encode(descriptor, [4, 5, 6])
        assert variant.Value == [4, 5, 6]
        assert variant.VariantType == ua.VariantType.Int16

    def test_encode_subtype_uses_current_value_type(self, codec: ValueCodec) -> None:
        descriptor = variable(
            "ns=2;s=Mode",
            3,
            ua.VariantType.Int32,
            data_type=ua.NodeId(3001, 2),
        )
        assert codec.encode(descriptor, 4).VariantType == ua.VariantType.Int32

    def test_encode_without_type_is_rejected(self, codec: ValueCodec) -> None:
        with pytest.raises(WriteRejected):
            codec.encode(obj("ns=2;s=Folder"), 1)
