"""
URL patterns of generated CRUD routes.

The list is filled in place by the route generator. To namespace the
routes, include it with an app name and set ROUTE_NAMESPACE to match:

    path('', include(('django_autocrud.urls', 'autocrud'), namespace='autocrud'))
"""

from django_autocrud.router import route_table

urlpatterns = route_table.urlpatterns
