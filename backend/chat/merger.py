# status: complete

from typing import List, Optional, Sequence, Union

from chat.messages import Message, UIMessage

ConversationEntry = Union[Message, UIMessage]


def merge_messages(
    persisted: Optional[Sequence[Message]],
    streaming: Sequence[UIMessage],
) -> List[ConversationEntry]:
    """
    One ordered view of a conversation.

    Persisted history comes first, unchanged and in its stored order. From the
    streaming buffer only assistant messages whose id is not already persisted
    are appended; user messages always come from the persisted side. When
    persisted history has not been loaded yet (None, as opposed to an empty
    list), the streaming buffer is shown on its own.

    Pure function: the inputs are not modified.
    """
    if persisted is None:
        return list(streaming)

    persisted_ids = {message.id for message in persisted}
    merged: List[ConversationEntry] = list(persisted)
    for message in streaming:
        if message.role != "assistant" or message.id in persisted_ids:
            continue
        merged.append(message)
        persisted_ids.add(message.id)
    return merged
