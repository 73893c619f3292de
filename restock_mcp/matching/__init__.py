"""Scope classification, tiered matching and the pressure gate."""
