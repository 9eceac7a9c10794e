"""Common utilities - config, logging, exceptions, constants."""
