import logging

from roi_ledger.utils.logging_redaction import RedactingFilter, redact_message


def test_redacts_bearer_and_api_key():
    assert "secret-token" not in redact_message("Authorization: Bearer secret-token")
    assert "abc123" not in redact_message("GATEWAY_API_KEY=abc123")


def test_redacts_telegram_token():
    msg = "POST https://api.telegram.org/bot123456:ABCdefGhIJKlmnoPQRstuVWxyz012345/sendMessage"
    assert "ABCdefGhIJKlmnoPQRstuVWxyz012345" not in redact_message(msg)


def test_account_number_keeps_last_four():
    redacted = redact_message("payout to account 001234567890")
    assert "001234567890" not in redacted
    assert redacted.endswith("****7890")


def test_iban_and_wallet_redacted():
    redacted = redact_message("iban AE070331234567890123456 wallet 0x52908400098527886E0F7030069857D2E4169EE7")
    assert "AE070331234567890123456" not in redacted
    assert "0x52908400098527886E0F7030069857D2E4169EE7" not in redacted


def test_plain_ledger_lines_untouched():
    line = "Payment confirmed: reference=INV-7-1760000000000-AB12CD34 type=investment amount=2000.00 AED"
    assert redact_message(line) == line


def test_filter_rewrites_record_with_args():
    record = logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="token %s",
        args=("Bearer abc.def",),
        exc_info=None,
    )
    assert RedactingFilter().filter(record) is True
    assert record.getMessage() == "token Bearer [REDACTED]"
