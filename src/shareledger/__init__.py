"""Shareledger — fractional asset ownership and pro-rata revenue distribution."""
