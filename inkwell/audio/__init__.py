"""Speech output: the ElevenLabs synthesis client and the sequential voice queue."""
