"""Credential Graph — query verifiable credentials as RDF and derive new ones.

JSON-LD verifiable credentials are projected into one RDF graph, queried
with a constrained subset of SPARQL, and selected results are synthesized
into derived credentials carrying provenance and integrity metadata.

Pipeline, leaves first:

- materialize:  credentials -> deduplicated default-graph statements (PyLD + rdflib)
- query:        classify SELECT / CONSTRUCT, evaluate SELECT into bindings
- construct:    CONSTRUCT -> preview SELECT, then bind only the picked rows
- canon:        order- and blank-node-independent dataset hash (URDNA2015)
- derivation:   validity-period intersection and derived credential assembly
- serialize:    Turtle rendering with an ordered fallback chain

Around the pipeline:

  validation   document shape checks and SHACL conformance (pySHACL)
  samples      built-in queries over common credential vocabularies
  display      one-line summaries of credentials
  cli          ``python -m credgraph`` / ``credgraph``

Contexts are resolved from files bundled in ``credgraph/contexts``; remote
context fetching is disabled unless CREDGRAPH_ALLOW_REMOTE_CONTEXTS is set.
"""
