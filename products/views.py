from third_party.views import ReferenceDataViewSet

from .models import Item
from .serializers import ItemSerializer


class ItemViewSet(ReferenceDataViewSet):
    queryset = Item.objects.select_related('customer')
    serializer_class = ItemSerializer
    search_fields = ['item_code', 'description', 'drawing_no']
    ordering = ['item_code']
