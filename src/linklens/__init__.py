"""LinkLens — a web portal around tshark, nmap, John the Ripper and OWASP ZAP."""

__version__ = "0.1.0"
