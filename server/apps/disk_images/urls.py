"""URL routes of the disk image API."""

from django.urls import path

from server.apps.disk_images import views

app_name = 'disk_images'

urlpatterns = [
    path('files', views.list_files, name='files'),
    path('upload', views.upload, name='upload'),
    path('multipart/create', views.multipart_create, name='multipart_create'),
    path(
        'multipart/upload-part',
        views.multipart_upload_part,
        name='multipart_upload_part',
    ),
    path(
        'multipart/complete',
        views.multipart_complete,
        name='multipart_complete',
    ),
    path('multipart/abort', views.multipart_abort, name='multipart_abort'),
    path('download/<path:name>', views.download, name='download'),
    path('delete/<path:name>', views.delete, name='delete'),
]
