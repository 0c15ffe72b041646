"""
Services Layer

Pure engines (no session, no HTTP):
- standings, advancement, bracket_graph, bracket_layout, knockout_builder

Session-bound services (read and write through a SQLModel Session):
- stage_standings_service, knockout_propagation, reseed_orchestrator

Neither kind depends on HTTP request/response objects.
"""
