"""Backend connectors.

Remote-backend specifics (authentication, endpoint tables, HTTP error
mapping) live here. The provisioning core in /core/ only depends on the
client interface exposed by each connector package.
"""
