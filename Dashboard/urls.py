from django.urls import include, path

urlpatterns = [
    path("access/", include("Access.urls")),
]
