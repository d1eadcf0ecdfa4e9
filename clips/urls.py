from django.urls import path
from .views import CompleteUploadView, ItemDetailView, TrendingListView, TrendingRecalculateView

urlpatterns = [
    path("items/<uuid:item_id>/", ItemDetailView.as_view(), name="item_detail"),
    path("items/<uuid:item_id>/complete/", CompleteUploadView.as_view(), name="item_complete"),
    path("trending/", TrendingListView.as_view(), name="trending_list"),
    path("trending/recalculate/", TrendingRecalculateView.as_view(), name="trending_recalculate"),
]
