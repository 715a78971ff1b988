"""Transcript Replay Broadcaster: paced transcript replay and live bridging.

WHY: Downstream consumers (enrichment services, dashboards, bots) need to
receive conversational transcripts as if the conversation were happening
now. Recorded CSV transcripts carry elapsed-time codes; this package turns
them back into a real-time stream, and can also bridge a live
transcription source into the same webhook path.

HOW: Four layers: core (records, timecodes, CSV loading), server
(session registry, replay scheduler, HTTP/WebSocket API), sinks (live
WebSocket push, webhook POST), and bridge (live source adapter and
forwarder). Each layer is independently testable.

RULES:
- The session registry is the only state shared between replays
- Every sink implements the same single deliver() operation
- The scheduler is written once against the sink interface
"""

__version__ = "0.1.0"
