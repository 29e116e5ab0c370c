from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import TicketViewSet

router = DefaultRouter()
router.register(r'tickets', TicketViewSet, basename='ticket')

app_name = 'tickets'

urlpatterns = [
    path('', include(router.urls)),
]

# Mounted under /api/ by trackdesk.urls:
# - GET/POST /api/tickets/ - List/Create tickets
# - GET/PATCH /api/tickets/{id or issue key}/ - Retrieve/Update ticket
# - POST /api/tickets/{id}/close/, cancel/, reopen/ - Status commands
# - GET /api/tickets/triage/ - Tickets pending internal review
# - GET/POST /api/tickets/{id}/comments/ and attachments/
# - GET/POST /api/tickets/{id}/links/, DELETE /api/tickets/{id}/links/{link_id}/
# - GET/POST/DELETE /api/tickets/{id}/watchers/
# - GET /api/tickets/{id}/history/ and tasks/
