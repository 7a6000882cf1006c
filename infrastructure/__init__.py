"""
AWS CDK Infrastructure for the FPL Assistant.

CDK app wrapping the stack defined in ``fpl_infra.stack`` for use with
``cdk synth`` and ``cdk diff``.
"""
