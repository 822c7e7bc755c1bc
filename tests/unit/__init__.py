"""
Unit Tests Package.

Component tests with controlled inputs: settings, models, payload
parsing, prompt construction, HTTP clients over MockTransport, the
reply filter, and the operator alert channel.
"""
