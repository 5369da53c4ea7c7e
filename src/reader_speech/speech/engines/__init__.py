"""
Speech engine implementations.

Engines are imported lazily by reader_speech.speech.engine.get_engine() so
optional dependencies (pyttsx3) are only loaded when selected.

    - simulated.py: timer-driven engine without audio
    - pyttsx3_engine.py: operating system voices through pyttsx3
"""
