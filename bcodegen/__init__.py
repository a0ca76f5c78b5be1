"""Intermediate representation, scopes and assembly generators for a B compiler."""

__version__ = "0.1.0"

__all__ = ["fasm_x86_64", "gas_aarch64", "ir", "ops", "scope"]