"""
Integrations Module - External System Integrations
===================================================

Provides the provider-facing pieces of a channel agent.

Modules:
    openai_agent: Assistants-backed agent (assistant, thread, one run per message)
    response_handler: Streams one run into one chat message (debounce, tools, stop)
    web_search: Tavily search tool that always returns JSON

Example:
    Streaming a run into a placeholder message:

        handler = ResponseHandler(
            openai_client=client,
            thread_id=thread_id,
            stream=stream,
            chat_client=chat_client,
            channel=channel,
            message_id=message_id,
            cid=cid,
            user_id=bot_user_id,
            event_bus=event_bus,
            http_client=http_client,
            on_dispose=lambda: None,
        )
        await handler.run()

See Also:
    :mod:`core.agent`: Agent contract and factory
    :mod:`core.events`: Event bus delivering stop events to handlers
"""
