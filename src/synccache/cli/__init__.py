"""Command-line interface for synccache."""
