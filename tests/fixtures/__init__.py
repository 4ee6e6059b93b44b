"""Test fixtures for chainwatch: exchange wire payloads, strike builders and a fixed clock."""
