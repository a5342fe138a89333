"""Codecs and the executor that drives them."""
