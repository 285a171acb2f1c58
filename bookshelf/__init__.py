"""Bookshelf: book records with attached book files."""
