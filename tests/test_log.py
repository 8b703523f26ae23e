import structlog

from storefront.log import configure_logging


def test_configure_logging_renders_json(capsys):
    configure_logging("DEBUG", json=True)
    try:
        structlog.get_logger("storefront.test").info("order_placed", order_number="ORD-1")
        out = capsys.readouterr().out
    finally:
        structlog.reset_defaults()

    assert '"event": "order_placed"' in out
    assert '"order_number": "ORD-1"' in out
