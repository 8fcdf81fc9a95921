"""
Tests Module: Unit and Integration Tests

Test Coverage:
    - N-gram extraction and padding
    - Builder lifecycle, weights and norms
    - Index scoring (cosine, fast, length-weighted, top-k)
    - Binary codec round trip and corruption handling
    - Errors, configuration, logging and CLI
"""
