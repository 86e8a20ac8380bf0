"""
Application services package.

Contains the provider client, the streaming generation pipeline, credential
resolution, titling and the service factory wiring them together.
"""
