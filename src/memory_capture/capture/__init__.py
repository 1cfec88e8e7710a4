"""Post-tool capture pipeline.

Reads one hook event, extracts memory content, filters it through the
novelty analyzer, and persists the surviving fragments as learnings.
"""
