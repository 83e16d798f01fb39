"""Core engine: service enumeration, ACL policy and remediation."""
