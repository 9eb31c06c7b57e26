"""
preop_guide – Personalised pre-operative preparation guide
===========================================================
Survey-driven personalisation, progress tracking, self-screening tests
and printable PDF guides for patients preparing for surgery.

Module map
----------
  models.py       Enums, survey schema, answer types, UserProfile,
                  ContentFlags and the content-section registry.
  config.py       Settings loaded from .env (storage, progress, documents, logging).
  storage.py      Namespaced key/value persistence (SQLite, memory fallback).
  profile.py      Profile derivation, content flags, section relevance/ordering.
  progress.py     Overall completion and per-section task progress.
  screening.py    AUDIT, Fagerström and DAST-20 instruments + scoring.
  content.py      Finnish document texts (passages, tables, advice).
  layout.py       Block model and the paginating LayoutEngine.
  documents.py    Document templates, PDF rendering and download.
  session.py      GuideSession: every user action behind one error boundary.
  cli.py          Rich command-line front end (`preop-guide`).

Data flow
---------
  survey answers → UserProfile → ContentFlags / section relevance
  → progress (completion %, per-section tasks)
  → screening tests → stored histories
  → ContentBundle → blocks → LayoutEngine pages → PDF
"""
__version__ = "0.1.0"
