"""
Interaction events: the typed event record and the ingest path that
stores each event and feeds it to persona scoring.
"""
