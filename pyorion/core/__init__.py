"""Core engine: grammar, consistency, derivation and scoping"""
