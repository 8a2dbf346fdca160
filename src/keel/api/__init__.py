"""HTTP surface of a keel application: error mapping and the system router."""
