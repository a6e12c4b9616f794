"""Test that the project setup is working correctly."""

import portfolio_sync


def test_version() -> None:
    """Test that version is defined."""
    assert portfolio_sync.__version__ == "0.1.0"


def test_import_modules() -> None:
    """Test that all submodules can be imported."""
    from portfolio_sync import analytics
    from portfolio_sync import providers
    from portfolio_sync import storage
    from portfolio_sync import sync

    # Just verify imports work
    assert analytics is not None
    assert providers is not None
    assert storage is not None
    assert sync is not None
