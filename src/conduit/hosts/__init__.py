"""Host adapters that run conduit pipelines inside AWS Lambda.

- sqs: SqsEventHandler, one void invocation per SQS record
- apigateway: ApiGatewayHandler, HTTP API v2 proxy events
"""
