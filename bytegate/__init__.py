"""ByteGate: rate limited AI chat gateway for the BrainBytes platform."""
