"""External backends: text completion and speech synthesis."""
