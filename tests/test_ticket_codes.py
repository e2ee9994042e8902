"""
Tests for ticket code generation and QR verification payloads.
"""

import re

import pytest

from register_path.services.ticket_codes import TicketCodeGenerator, to_base36

CODE_PATTERN = re.compile(r"^RP-[0-9A-Z]+-[0-9A-F]{8}$")


def test_to_base36():
    assert to_base36(0) == "0"
    assert to_base36(35) == "z"
    assert to_base36(36) == "10"
    assert to_base36(1000) == "rs"

    with pytest.raises(ValueError):
        to_base36(-1)


def test_code_format_uses_clock_and_random_bytes():
    generator = TicketCodeGenerator(
        base_url="http://test",
        secret_key="k",
        random_bytes=lambda n: bytes.fromhex("deadbeef"),
        clock=lambda: 1.0,
    )
    assert generator.generate_code() == "RP-RS-DEADBEEF"


def test_generated_codes_are_distinct(ticket_generator):
    codes = {ticket_generator.generate_code() for _ in range(500)}
    assert len(codes) == 500
    assert all(CODE_PATTERN.match(code) for code in codes)


def test_verification_payload_is_deterministic(ticket_generator):
    code = ticket_generator.generate_code()
    payload = ticket_generator.generate_verification_payload(code)

    assert payload == ticket_generator.generate_verification_payload(code)
    assert payload.startswith(f"http://test/api/v1/tickets/{code}/verify?sig=")


def test_verify_payload_returns_code(ticket_generator):
    code = ticket_generator.generate_code()
    payload = ticket_generator.generate_verification_payload(code)
    assert ticket_generator.verify_payload(payload) == code


def test_verify_payload_rejects_tampering(ticket_generator):
    code = ticket_generator.generate_code()
    payload = ticket_generator.generate_verification_payload(code)
    other = TicketCodeGenerator(base_url="http://test", secret_key="another-secret")

    assert ticket_generator.verify_payload(payload.replace(code, "RP-0-00000000")) is None
    assert other.verify_payload(payload) is None
    assert ticket_generator.verify_payload(f"http://test/api/v1/tickets/{code}/verify") is None
    assert ticket_generator.verify_payload("not a url") is None
