"""Configuration, logging and exceptions shared by the engine and the shell."""
