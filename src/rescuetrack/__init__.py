"""RescueTrack — animal rescue case tracking backend.

Cases move through a multi-party workflow (rescuer, vet, foster,
coordinator) with public/private visibility, collaborative editing
and live updates pushed to connected viewers.
"""

__version__ = "0.1.0"
