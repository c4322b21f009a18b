"""Flashcard generation service package."""
