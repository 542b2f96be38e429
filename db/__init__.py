"""Database package for the follow-up rule engine.

Import the engine and session helpers from db.connection; importing this
package alone does not require DATABASE_URL.
"""
