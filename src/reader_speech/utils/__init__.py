"""
Utility Modules for reader-speech.

    - timeit.py: Wall-clock timing for log lines
"""
