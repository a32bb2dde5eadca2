"""Flight surety: airline admission, oracle consensus and insurance escrow."""
