from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from chat import services
from chat.serializers import ChatActionSerializer, ChatMessageSerializer
from common.exceptions import DispatchError
from common.responses import error_response


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def chat(request):
    """
    Course chat actions.

    POST Body:
    {
        "action": "get_messages" | "send_message" | "mark_read",
        "course_id": 12,
        "content": "On my way"   (send_message only)
    }
    """
    serializer = ChatActionSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    action = data['action']
    course_id = data['course_id']

    try:
        if action == 'get_messages':
            messages = services.get_messages(request.user, course_id)
            return Response({
                'success': True,
                'messages': ChatMessageSerializer(messages, many=True).data,
            })

        if action == 'send_message':
            message = services.send_message(request.user, course_id, data['content'])
            return Response({
                'success': True,
                'message': ChatMessageSerializer(message).data,
            }, status=status.HTTP_201_CREATED)

        updated = services.mark_read(request.user, course_id)
        return Response({'success': True, 'updated': updated})
    except DispatchError as exc:
        return error_response(exc)
